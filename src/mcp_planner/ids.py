"""Identifier generation for plans and steps."""

import uuid


def new_id() -> str:
	"""Return a new globally unique identifier."""
	return str(uuid.uuid4())
