"""Compiler backends: seed parsing, standard solc, the EOF build and dispatch."""
