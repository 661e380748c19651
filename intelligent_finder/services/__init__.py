"""Services for document matching and confidence scoring."""
