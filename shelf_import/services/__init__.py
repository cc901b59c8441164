"""Import services: normalization, shelf resolution, chunked pipeline, worker and controller."""
