"""College regression analysis: linear model variants, best subset selection
and cross-validated polynomial degree selection."""
