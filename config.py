import os


class Config:
    MYSQL_USER = os.getenv('MYSQL_USER', 'root')
    MYSQL_PASSWORD = os.getenv('MYSQL_PASSWORD', 'root123')
    MYSQL_HOST = os.getenv('MYSQL_HOST', 'localhost')
    MYSQL_DB = os.getenv('MYSQL_DB', 'sales_dashboard')
    MYSQL_PORT = int(os.getenv('MYSQL_PORT', 3306))
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    SALES_API_BASE = os.getenv('SALES_API_BASE', 'http://localhost:5000/api')
