"""AVRDeck - network AV receiver controls for a control surface."""

__version__ = "0.1.0"
