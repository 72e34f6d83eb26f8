"""
Over-representation analysis for rnadiff.

Hypergeometric tests of annotation terms in a foreground gene set against a
background universe, with adapters for the identifier mapping and the
annotation catalog that the analysis consumes.
"""

import warnings
from collections.abc import Mapping

import numpy as np
import pandas as pd
from scipy.stats import hypergeom

from .classes import EnrichmentResult
from .errors import InsufficientDataError, MappingGapWarning

ENRICHMENT_PVALUE = 0.001

RESULT_COLUMNS = ['term', 'description', 'pvalue', 'oddsRatio', 'expected',
                  'count', 'size', 'genes']


class GeneIdMapper:
    """Lookup from count-matrix gene identifiers to annotation identifiers.

    Parameters
    ----------
    mapping : Mapping, Series or callable
        ``mapping[gene]`` / ``mapping(gene)`` gives the annotation
        identifier. Missing keys, ``None`` and NaN mean unmapped.
    """

    def __init__(self, mapping=None):
        if isinstance(mapping, pd.Series):
            mapping = mapping.dropna()
            mapping = dict(zip(mapping.index.astype(str), mapping.astype(str)))
        self._mapping = mapping

    def lookup(self, gene):
        """Annotation identifier for one gene, or None."""
        if self._mapping is None:
            return str(gene)
        if callable(self._mapping) and not isinstance(self._mapping, Mapping):
            value = self._mapping(gene)
        else:
            value = self._mapping.get(gene)
        if value is None or (isinstance(value, float) and np.isnan(value)):
            return None
        return str(value)

    def map(self, genes):
        """Map a gene list.

        Returns
        -------
        mapped : list of str
            Unique annotation identifiers in order of first appearance.
        unmapped : list of str
            Input genes without a mapping.
        """
        mapped = {}
        unmapped = []
        for g in genes:
            value = self.lookup(g)
            if value is None:
                unmapped.append(g)
            else:
                mapped.setdefault(value, None)
        return list(mapped), unmapped


class AnnotationCatalog:
    """Term membership over annotation identifiers, split by ontology branch.

    Parameters
    ----------
    records : DataFrame
        One row per (term, gene) membership with columns ``term`` and
        ``gene``, and optionally ``branch`` and ``description``.
    """

    def __init__(self, records):
        records = pd.DataFrame(records)
        for col in ('term', 'gene'):
            if col not in records.columns:
                raise ValueError(f"catalog records need a '{col}' column")
        records = records.copy()
        records['term'] = records['term'].astype(str)
        records['gene'] = records['gene'].astype(str)
        if 'branch' not in records.columns:
            records['branch'] = None
        self.records = records.drop_duplicates(['term', 'gene', 'branch'])
        if 'description' in records.columns:
            desc = records.dropna(subset=['description']).drop_duplicates('term')
            self._descriptions = dict(zip(desc['term'], desc['description'].astype(str)))
        else:
            self._descriptions = {}

    @classmethod
    def from_mapping(cls, term_genes, descriptions=None, branch=None):
        """Build a catalog from ``{term: genes}``."""
        rows = [(t, str(g), branch) for t, genes in term_genes.items() for g in genes]
        records = pd.DataFrame(rows, columns=['term', 'gene', 'branch'])
        if descriptions:
            records['description'] = records['term'].map(descriptions)
        return cls(records)

    def branches(self):
        """Ontology branches present in the catalog."""
        return sorted(b for b in self.records['branch'].dropna().unique())

    def members(self, branch=None):
        """``{term: frozenset(genes)}`` for one branch (all terms when None)."""
        rec = self.records
        if branch is not None:
            rec = rec[rec['branch'] == branch]
        return {term: frozenset(grp['gene']) for term, grp in rec.groupby('term', sort=True)}

    def description(self, term):
        return self._descriptions.get(term, '')


def hypergeometric_pvalue(count, universe_size, term_size, foreground_size):
    """P(X >= count) for X ~ Hypergeometric(universe, term size, foreground size)."""
    return float(hypergeom.sf(count - 1, universe_size, term_size, foreground_size))


def enrichment_test(foreground, universe, catalog, mapper=None, branch=None,
                    pvalue_cutoff=ENRICHMENT_PVALUE, annotated_universe=False):
    """Hypergeometric over-representation test of annotation terms.

    Parameters
    ----------
    foreground : list of str
        Genes of interest (e.g. the differentially expressed set).
    universe : list of str
        Background genes (e.g. all genes passing the count floor).
    catalog : AnnotationCatalog or Mapping
        Term membership; a plain ``{term: genes}`` mapping is accepted.
    mapper : GeneIdMapper, Mapping or callable, optional
        Identifier mapping; identity when omitted.
    branch : str, optional
        Ontology branch to test.
    pvalue_cutoff : float
        Terms with a p-value above this are not reported.
    annotated_universe : bool
        Restrict the universe to genes with at least one term in the branch.
        Genes dropped this way are counted in the diagnostics and reported
        with a MappingGapWarning.

    Returns
    -------
    EnrichmentResult with a 'table' sorted by ascending p-value and mapping
    diagnostics.

    Raises
    ------
    InsufficientDataError
        The universe is empty after mapping.
    """
    if not isinstance(catalog, AnnotationCatalog):
        catalog = AnnotationCatalog.from_mapping(catalog, branch=branch)
    if not isinstance(mapper, GeneIdMapper):
        mapper = GeneIdMapper(mapper)

    fg_mapped, fg_unmapped = mapper.map(foreground)
    uni_mapped, uni_unmapped = mapper.map(universe)
    n_unmapped = len(fg_unmapped) + len(uni_unmapped)
    if n_unmapped:
        warnings.warn(f"{len(fg_unmapped)} foreground and {len(uni_unmapped)} universe "
                      "identifiers could not be mapped and were dropped",
                      MappingGapWarning, stacklevel=2)

    terms = catalog.members(branch)
    universe_set = set(uni_mapped)
    unannotated_fg = unannotated_uni = 0
    if annotated_universe:
        annotated = set().union(*terms.values()) if terms else set()
        unannotated_uni = len(universe_set - annotated)
        unannotated_fg = len(set(fg_mapped) & (universe_set - annotated))
        universe_set &= annotated
        if unannotated_uni:
            warnings.warn(f"{unannotated_fg} foreground and {unannotated_uni} universe "
                          "identifiers have no annotation in the branch and were dropped",
                          MappingGapWarning, stacklevel=2)
    if not universe_set:
        raise InsufficientDataError('enrichment', 0, "empty universe after mapping")

    fg_set = set(fg_mapped) & universe_set
    N = len(universe_set)
    n = len(fg_set)

    rows = []
    if n > 0:
        for term, genes in terms.items():
            in_universe = genes & universe_set
            hits = in_universe & fg_set
            count = len(hits)
            if count == 0:
                continue
            size = len(in_universe)
            p = hypergeometric_pvalue(count, N, size, n)
            if p > pvalue_cutoff:
                continue
            rows.append({
                'term': term,
                'description': catalog.description(term),
                'pvalue': p,
                'oddsRatio': _odds_ratio(count, size, n, N),
                'expected': n * size / N,
                'count': count,
                'size': size,
                'genes': sorted(hits),
            })

    table = pd.DataFrame(rows, columns=RESULT_COLUMNS)
    if len(table):
        table = table.sort_values(['pvalue', 'term'], kind='mergesort').reset_index(drop=True)

    out = EnrichmentResult()
    out['table'] = table
    out['branch'] = branch
    out['universe.size'] = N
    out['foreground.size'] = n
    out['unmapped.foreground'] = len(fg_unmapped)
    out['unmapped.universe'] = len(uni_unmapped)
    out['unannotated.foreground'] = unannotated_fg
    out['unannotated.universe'] = unannotated_uni
    out['pvalue.cutoff'] = pvalue_cutoff
    return out


def _odds_ratio(count, size, n, N):
    a = count
    b = n - count
    c = size - count
    d = N - size - n + count
    if b * c == 0:
        return np.inf
    return (a * d) / (b * c)


def top_terms(result, n=10):
    """The ``n`` most significant terms."""
    return result['table'].head(n)
