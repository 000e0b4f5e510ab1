"""Auto-Skills bundle installer."""

VERSION = "2.1.0"
