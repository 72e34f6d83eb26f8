"""
End-to-end analysis for rnadiff.

Chains normalization, dispersion estimation, Wald testing, gene selection,
clustering and enrichment, producing every table the plotting layer needs.
"""

import warnings

from .classes import AnalysisResult
from .clustering import K_MAX, cluster_genes
from .dataset import make_dataset
from .dispersion import estimate_dispersions
from .enrichment import ENRICHMENT_PVALUE, enrichment_test
from .errors import InsufficientDataError
from .expression import de_submatrix
from .filtering import MIN_TOTAL_COUNT
from .normalization import estimate_size_factors
from .parallel import check_cancel
from .pca import principal_components
from .results import LFC_THRESHOLD, PADJ_THRESHOLD, select_de_genes
from .wald import wald_test


def run_analysis(x, condition=None, reference=None, catalog=None, mapper=None,
                 branch=None, min_total_count=MIN_TOTAL_COUNT,
                 padj_threshold=PADJ_THRESHOLD, lfc_threshold=LFC_THRESHOLD,
                 k_max=K_MAX, enrichment_pvalue=ENRICHMENT_PVALUE,
                 fit_type='parametric', prior_count=1.0, n_jobs=1, cancel=None):
    """Run the full differential expression, clustering and enrichment analysis.

    Parameters
    ----------
    x : CountDataSet or DataFrame
        Counts. A DataFrame (genes x samples) needs ``condition``.
    condition : sequence or Mapping, optional
        Condition per sample when ``x`` is a DataFrame.
    reference : str, optional
        Reference condition level.
    catalog : AnnotationCatalog or Mapping, optional
        Annotation catalog; enrichment is skipped without one.
    mapper : GeneIdMapper, Mapping or callable, optional
        Gene identifier mapping for enrichment.
    branch : str, optional
        Ontology branch for enrichment.
    min_total_count, padj_threshold, lfc_threshold, k_max, enrichment_pvalue
        Stage thresholds, see the individual functions.
    fit_type : str
        Dispersion trend type.
    prior_count : float
        Prior count for log expression used by clustering and PCA.
    n_jobs : int
        Worker threads for per-gene stages.
    cancel : threading.Event, optional
        Cooperative cancellation checked between and within stages.

    Returns
    -------
    AnalysisResult with keys 'dataset', 'dispersions', 'results',
    'de.genes', 'de.matrix', 'pca', 'clusters', 'enrichment' and
    'stage.errors'. Stages that lacked data hold None and their
    InsufficientDataError is stored under 'stage.errors'.
    """
    if not (isinstance(x, dict) and 'counts' in x):
        if condition is None:
            raise ValueError("condition is required when counts are not a CountDataSet")
        x = make_dataset(x, condition, reference=reference)

    errors = {}
    x = estimate_size_factors(x)
    check_cancel(cancel)
    disp = estimate_dispersions(x, min_total_count=min_total_count, fit_type=fit_type,
                                n_jobs=n_jobs, cancel=cancel)
    check_cancel(cancel)
    res = wald_test(x, disp, n_jobs=n_jobs, cancel=cancel)
    de_genes = select_de_genes(res, padj_threshold=padj_threshold,
                               lfc_threshold=lfc_threshold)
    de_matrix = de_submatrix(x, de_genes, log=True, prior_count=prior_count)

    pca = _run_stage('pca', errors, principal_components, de_matrix)
    check_cancel(cancel)
    clusters = _run_stage('clustering', errors, cluster_genes, de_matrix,
                          k_max=k_max, n_jobs=n_jobs, cancel=cancel)

    enrichment = None
    if catalog is not None:
        universe = list(disp['table'].index)
        enrichment = _run_stage('enrichment', errors, enrichment_test, de_genes,
                                universe, catalog, mapper=mapper, branch=branch,
                                pvalue_cutoff=enrichment_pvalue)

    out = AnalysisResult()
    out['dataset'] = x
    out['dispersions'] = disp
    out['results'] = res
    out['de.genes'] = de_genes
    out['de.matrix'] = de_matrix
    out['pca'] = pca
    out['clusters'] = clusters
    out['enrichment'] = enrichment
    out['stage.errors'] = errors
    return out


def _run_stage(stage, errors, func, *args, **kwargs):
    """Run a downstream stage; record a shortage of data instead of raising."""
    try:
        return func(*args, **kwargs)
    except InsufficientDataError as e:
        errors[stage] = e
        warnings.warn(f"skipping {stage}: {e}", RuntimeWarning, stacklevel=3)
        return None
