"""Feature inspection for the diabetic readmission dataset.

Descriptive Statistics:
- Outcome-stratified summary table

Collinearity:
- Pearson correlation matrix of numeric features
- Variance inflation factors with negligible / moderate / severe levels

Plots (see ``src.feature_analysis.plots``):
- Categorical level proportions by outcome
- Numeric distributions by outcome
- Correlation heatmap
"""

from src.feature_analysis.inspection import (
    classify_vif,
    compute_vif,
    correlation_matrix,
    generate_inspection_report,
    summarize_dataset,
)

__all__ = [
    "classify_vif",
    "compute_vif",
    "correlation_matrix",
    "generate_inspection_report",
    "summarize_dataset",
]
