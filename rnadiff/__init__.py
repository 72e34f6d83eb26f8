"""
rnadiff: differential expression, clustering and enrichment for RNA counts.

Negative binomial Wald tests across the levels of a condition factor,
followed by hierarchical clustering of the differentially expressed genes
and hypergeometric over-representation testing.
"""

__version__ = "0.1.0"

# --- Classes ---
from .classes import (CountDataSet, DispersionTable, DEResults, ClusterResult,
                      EnrichmentResult, AnalysisResult)

# --- Errors ---
from .errors import (
    RnadiffError,
    InputShapeError,
    NumericDegeneracyError,
    NumericDegeneracyWarning,
    InsufficientDataError,
    MappingGapWarning,
    AnalysisCancelled,
)

# --- Data set construction & accessors ---
from .dataset import make_dataset, get_counts, get_size_factors, get_condition

# --- I/O ---
from .io import read_counts, read_samples, read_dataset

# --- Normalization & filtering ---
from .normalization import estimate_size_factors, normalized_counts
from .filtering import filter_by_count, MIN_TOTAL_COUNT

# --- Expression ---
from .expression import log_expression, de_submatrix

# --- Dispersion estimation ---
from .dispersion import estimate_dispersions, fit_parametric_trend, get_dispersion

# --- GLM fitting & testing ---
from .glm import fit_nb_glm, nbinom_unit_deviance
from .wald import wald_test

# --- Results ---
from .results import (p_adjust, select_de_genes, decide_tests, top_table, summarize,
                      PADJ_THRESHOLD, LFC_THRESHOLD)

# --- Clustering & PCA ---
from .clustering import correlation_distance, cluster_genes, ClusterTree, K_MAX
from .pca import principal_components

# --- Enrichment ---
from .enrichment import (GeneIdMapper, AnnotationCatalog, enrichment_test,
                         hypergeometric_pvalue, top_terms, ENRICHMENT_PVALUE)

# --- Pipeline ---
from .pipeline import run_analysis

# --- Utilities ---
from .utils import condition_design
