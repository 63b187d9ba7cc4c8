from .roster_loader import PersonnelDirectory, StaticDirectory, load_directory, load_roster, roster_to_dataframe

__all__ = ["PersonnelDirectory", "StaticDirectory", "load_directory", "load_roster", "roster_to_dataframe"]
