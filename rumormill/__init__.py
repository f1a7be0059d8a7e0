"""RumorMill - anonymous rumor board with credibility-weighted votes."""

__version__ = "0.3.0"
