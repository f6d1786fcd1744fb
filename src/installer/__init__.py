"""Install pipeline: resolution planning, download/extract orchestration and patching."""
