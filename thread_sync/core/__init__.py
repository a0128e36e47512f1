"""Core building blocks: settings, errors, pagination and the data model."""
