"""Entity handles, archetype column storage and queries for an entity-component store."""

__version__ = "0.1.0"