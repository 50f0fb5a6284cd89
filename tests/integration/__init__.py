"""Subprocess-level CLI tests; kept as a package so module names stay distinct."""
