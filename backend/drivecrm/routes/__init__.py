"""DriveCRM API Routes"""
