"""Chain access: resilient RPC, key derivation, signing, and run setup."""
