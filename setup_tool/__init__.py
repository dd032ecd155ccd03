"""Object store access: request signing, providers, key policy, uploads and the CLI."""
