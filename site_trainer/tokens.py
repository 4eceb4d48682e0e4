import logging

import tiktoken

from site_trainer.config import CHARS_PER_TOKEN

logger = logging.getLogger(__name__)


def load_tokenizer(model: str):
    """Return a tiktoken encoding for ``model``, or None when tiktoken cannot load one."""
    try:
        try:
            return tiktoken.encoding_for_model(model)
        except KeyError:
            logger.warning(f"Tokenizer for model '{model}' not found. Falling back to 'cl100k_base'.")
            return tiktoken.get_encoding("cl100k_base")
    except Exception as e:
        logger.error(f"Could not initialize tiktoken tokenizer: {e}. Token counts will be estimated.")
        return None


def count_tokens(text: str, tokenizer=None) -> int:
    """Count tokens with ``tokenizer`` if given, else estimate at four characters per token."""
    if not text:
        return 0
    if tokenizer is not None:
        try:
            return len(tokenizer.encode(text))
        except Exception as e:
            logger.debug(f"Token counting failed, estimating instead: {e}")
    return -(-len(text) // CHARS_PER_TOKEN)
