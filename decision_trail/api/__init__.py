"""HTTP surface for recorded executions."""
