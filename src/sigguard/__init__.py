"""sigguard — signature authorization and replay-protection core."""
