"""FastAPI web surface for the feature gate and lineup engine."""
