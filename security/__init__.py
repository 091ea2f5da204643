# Security module - redaction, secure buffers, the secret store
# Only the dependency-free redactor is re-exported here; import
# security.memory and security.secret_store directly (they log).

from .redactor import Redactor, RedactionRules, redact, redact_text, mask_value

__all__ = ["Redactor", "RedactionRules", "redact", "redact_text", "mask_value"]
