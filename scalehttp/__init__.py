"""Scale-to-zero HTTP interceptor handlers, routing middleware and HTTPScaledObject reconciler."""

__version__ = "0.1.0"