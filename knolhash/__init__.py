"""knolhash: extract review cards from Markdown notes and schedule them with a simplified FSRS model."""

__version__ = "0.1.0"
