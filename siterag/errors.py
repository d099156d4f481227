"""Exception hierarchy for the retrieval and answer pipeline."""


class SiteRagError(Exception):
    """Base class for siterag errors."""


class IndexUnavailableError(SiteRagError):
    """An index source could not produce an index (missing, network, parse)."""


class IndexFormatError(IndexUnavailableError, ValueError):
    """A persisted index artifact is structurally invalid."""


class GenerationError(SiteRagError):
    """The external generation service failed or returned an unusable body."""
