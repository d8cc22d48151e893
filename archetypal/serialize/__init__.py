"""Namespace for serialization of entities; it holds no modules yet."""