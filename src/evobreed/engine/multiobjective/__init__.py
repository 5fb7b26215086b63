"""Non-dominated sorting and sparsity for multi-objective fitness."""
