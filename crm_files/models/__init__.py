from crm_files.models.crm import Company, Contact, Deal  # noqa: F401
from crm_files.models.file import DocType, EntityType, File, FileLink  # noqa: F401
from crm_files.models.identity import Organization, User, UserRole  # noqa: F401
