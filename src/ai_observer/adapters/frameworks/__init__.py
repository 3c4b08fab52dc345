"""HTTP framework adapters for the OTLP receiver."""
