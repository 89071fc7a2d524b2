"""Infrastructure adapters: HTTP, logging, tasks, persistence, manifests."""
