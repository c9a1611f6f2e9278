"""
User-facing texts (Persian).
"""

# Commands
CMD_START = "/start"
CMD_ALERT_SET = "/alertSet"
CMD_ALERT_LIST = "/alertList"
CMD_CANCEL = "/cancel"

DELETE_CALLBACK_PREFIX = "delete_alert-"

HELP = (
    "با این ربات می‌توانید برای جستجوهای دیوار اعلان تنظیم کنید.\n\n"
    f"{CMD_ALERT_SET} - تنظیم اعلان جدید\n"
    f"{CMD_ALERT_LIST} - فهرست اعلان‌ها\n"
    f"{CMD_CANCEL} - لغو فرآیند جاری"
)

CHOOSE_COMMAND = "لطفا یکی از دستورات را انتخاب کنید."

# SET_ALERT process prompts
PROMPT_TITLE = "لطفا عنوان اعلان را ارسال کنید:"
PROMPT_LINK = "لطفا لینک دیوار را ارسال کنید:"
PROMPT_INTERVAL = "هر چند ثانیه میخواهید چک شود؟"
ALERT_SET_DONE = "اعلان با موفقیت تنظیم شد."

# Validation
INVALID_TITLE = "عنوان نمی‌تواند خالی باشد. لطفا عنوان اعلان را ارسال کنید:"
INVALID_INTERVAL = "لطفا یک عدد صحیح بزرگ‌تر از صفر (به ثانیه) ارسال کنید:"
INVALID_LINK = (
    "لینک معتبر نیست. در صفحه جستجوی دیوار درخواست "
    "/v8/postlist/w/search را به صورت cURL کپی و ارسال کنید:"
)
UNKNOWN_PROCESS = "این فرآیند پشتیبانی نمی‌شود."

# Failures
ERR_START_PROCESS = "خطا در شروع فرآیند تنظیم هشدار."
ERR_CONTINUE_PROCESS = "خطا در ادامه فرآیند."
ERR_LIST_ALERTS = "خطا در دریافت اعلان‌ها."
ERR_DELETE_ALERT = "خطا در حذف اعلان."

# Listing / deleting
NO_ALERTS = "هیچ اعلان فعالی وجود ندارد."
ALERT_DELETED = "اعلان با موفقیت حذف شد."
DELETE_BUTTON = "حذف {title}"
ALERT_LINE = "{index}. {title} (هر{interval} ثانیه)"
LAST_CHECKED = "آخرین بررسی: {time}"
NEVER_CHECKED = "هنوز بررسی نشده"

# Cancel
CANCELLED = "فرآیند لغو شد."
NOTHING_TO_CANCEL = "فرآیند فعالی وجود ندارد."

# New post notification
NEW_POST_HEADER = "پست جدید برای: {title}"
