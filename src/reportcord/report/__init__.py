"""
The member report pipeline.

- **report_service.py**: Runs a single report from eligibility checks to the reply.
- **cooldown_ledger.py**, **deduplicator.py**, **context_window.py**: In-memory
  state owned by the service (reset on restart).
- **prompt_builder.py** / **response_parser.py**: Classifier prompt and response handling.
- **enforcement_executor.py**: Maps assessments onto mute/warn/kick commands.
- **audit_logger.py**: Bounded audit trail plus notifications.
"""
