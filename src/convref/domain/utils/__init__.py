from ._control_path import create_path_builder, StatefulObject

__all__ = ["create_path_builder", "StatefulObject"]
