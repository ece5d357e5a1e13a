"""hourbook - hourly journals, day plans and prioritized task queues."""
