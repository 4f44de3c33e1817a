"""Image pipeline: decode, transform, encode."""
