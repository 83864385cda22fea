from intakelog.db import DDL, ensure_schema
from intakelog.settings import settings

if __name__ == "__main__":
    print('Connecting to', settings.db_url)
    print(DDL)
    ensure_schema()
    print('DDL applied')
