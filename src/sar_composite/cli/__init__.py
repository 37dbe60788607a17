"""Command line interface (`sarc`)."""
