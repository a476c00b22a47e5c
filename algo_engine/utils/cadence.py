"""Schedule cadence string to minutes conversion."""

def cadence_minutes(cadence: str) -> int:
    """Convert a cadence such as '1m', '15m', '1h' or '1d' to minutes."""
    c = cadence.strip().lower()
    try:
        if c.endswith("m"):
            value = int(c[:-1])
        elif c.endswith("h"):
            value = int(c[:-1]) * 60
        elif c.endswith("d"):
            value = int(c[:-1]) * 60 * 24
        else:
            raise ValueError
    except ValueError:
        raise ValueError(f"Unsupported cadence: {cadence}") from None
    if value <= 0:
        raise ValueError(f"Cadence must be positive: {cadence}")
    return value
