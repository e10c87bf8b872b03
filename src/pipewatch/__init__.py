"""Pipewatch: watch and drive content-processing pipelines."""
