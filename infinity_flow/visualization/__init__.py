from .plot import plot_embedding

__all__ = ["plot_embedding"]
