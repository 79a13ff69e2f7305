from .config import VariantConfig, resolve, resolve_for_target

__all__ = ["VariantConfig", "resolve", "resolve_for_target"]
