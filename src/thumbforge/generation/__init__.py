"""Generation pipeline: request models, polling, materialisation and orchestration."""
