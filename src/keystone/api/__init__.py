"""HTTP API: dependencies, access checks and resource routers."""
