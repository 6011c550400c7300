"""HTTP transport for booking and payment settlement."""
