"""Well-known capability identifiers."""

TEXT_GENERATION_CAPABILITY = "text-generation"
IMAGE_GENERATION_CAPABILITY = "image-generation"

# Capabilities the runtime itself needs from at least one provider
REQUIRED_CAPABILITIES: tuple[str, ...] = (TEXT_GENERATION_CAPABILITY,)
