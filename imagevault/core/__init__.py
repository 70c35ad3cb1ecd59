"""Core building blocks: configuration, logging, guards and the persistence layer."""
