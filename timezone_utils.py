from datetime import datetime
import pytz

LOCAL_TZ = pytz.timezone('Asia/Dhaka')

def get_local_time():
    """Get current time in the business time zone"""
    return datetime.now(LOCAL_TZ)

def get_local_time_naive():
    """Get current local time as naive datetime for database storage"""
    return datetime.now(LOCAL_TZ).replace(tzinfo=None)

def get_local_date():
    return get_local_time().date()

def current_month_key():
    """Current month as a YYYY-MM key"""
    return get_local_time().strftime('%Y-%m')
