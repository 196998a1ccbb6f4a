"""HTTP API for the NexoraOS backend."""
