from clipshelf.utils.file_manager import FileManager

__all__ = ['FileManager']
