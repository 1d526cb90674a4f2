"""Result sinks: JSON file and relational database."""
