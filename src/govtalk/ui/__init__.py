"""User interfaces for govtalk."""
