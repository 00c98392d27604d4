"""sportlink-sync: mirror Sportlink member data into Stadion and Laposta."""

__version__ = "0.1.0"
