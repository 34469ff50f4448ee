"""core/ -- Kernel: configuration. Imports nothing from the other packages."""
