"""Model persistence."""

from colclust.storage.model_store import load_model, save_model

__all__ = ["load_model", "save_model"]
