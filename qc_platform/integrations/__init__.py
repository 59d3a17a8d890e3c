"""qc_platform.integrations: External service gateway modules.

Outbound calls to byte storage go through a gateway in this package,
never via bare ``requests`` calls in services or blueprints:
  - Authenticated (token injected by the gateway)
  - Retried with backoff
  - Failures surfaced as ExternalServiceError

Current gateways:
  attachment_store.AttachmentStore - local filesystem or remote object service
"""
