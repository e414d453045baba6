from ._parallel_nd import balance211, parallel_nd

__all__ = ["balance211", "parallel_nd"]
