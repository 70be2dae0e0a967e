"""Differential fuzzing engine.

Implements one test iteration's moving parts:
  - Variant generation through an external AST rewrite engine
  - Random call planning for the target function
  - Execution in the reference EVM
  - Cross-backend divergence classification
"""
