"""External package registry access (npm) and connectivity probing."""
