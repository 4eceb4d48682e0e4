"""Error taxonomy for the training pipeline.

Only aggregate conditions surface as job errors: a single bad page or an
unparseable LLM reply is handled inside the component that met it.
"""


class SiteTrainerError(Exception):
    """Base class for all pipeline errors."""


class InvalidRequestError(SiteTrainerError):
    """A job submission was rejected before any job record was written."""


class CrawlFailure(SiteTrainerError):
    """No page of the site could be fetched and extracted."""


class NoContentError(SiteTrainerError):
    """Crawling and document ingestion together produced no text."""


class LLMError(SiteTrainerError):
    """The LLM provider could not produce a usable reply."""


class LLMTransportError(LLMError):
    """Network or HTTP failure calling the provider, after all retries."""


class LLMParseError(SiteTrainerError):
    """The provider replied, but no JSON could be extracted from the reply."""


class PersistenceError(SiteTrainerError):
    """A job store read or write failed."""


class JobNotFoundError(PersistenceError):
    pass


class JobFinalizedError(PersistenceError):
    """A write targeted a job that already reached a terminal status."""
