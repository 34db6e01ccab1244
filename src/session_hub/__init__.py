"""Session lifecycle and phase repository provisioning for a code-hosting workflow."""
