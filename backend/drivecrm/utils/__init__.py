"""DriveCRM utilities"""
