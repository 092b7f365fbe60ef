"""Core cache machinery: signatures, locks, validation, corpus verification."""
