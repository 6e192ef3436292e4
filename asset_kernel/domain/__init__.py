"""Pure kernel domain helpers (time source, calendar arithmetic)."""
