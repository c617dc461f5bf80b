import os
import sqlite3


class Database:

    @staticmethod
    def connect(path):
        """Open a connection whose rows can be read by column name"""
        conn = sqlite3.connect(path)
        conn.row_factory = sqlite3.Row
        return conn

    @staticmethod
    def ensure_dir(path):
        """
        Create the parent directory of a database file if it does not exist.
        Returns the path unchanged so it can be used inline.
        """
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        return path
