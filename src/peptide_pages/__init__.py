"""peptide-pages: citation-verified evidence pages for peptides."""

__version__ = "0.1.0"
