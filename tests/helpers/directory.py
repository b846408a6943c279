"""Organisation fixture used by resolver and service tests.

    dept-eng (head: dana)
      team-core (lead: lee)
        erin (employee, manager: mona)
        mona (manager)
    hana, harry (HR), ada (admin), ivan (inactive HR)
"""

from hrnotify.domain.models import DirectoryUser, Role, UserStatus
from hrnotify.persistence import DirectoryRepository, get_session

USERS = [
    DirectoryUser(id="u-erin", email="erin@example.com", first_name="Erin", last_name="Employee",
                  manager_id="u-mona", team_id="team-core", department_id="dept-eng"),
    DirectoryUser(id="u-mona", email="mona@example.com", first_name="Mona", last_name="Manager",
                  role=Role.MANAGER, team_id="team-core", department_id="dept-eng"),
    DirectoryUser(id="u-lee", email="lee@example.com", first_name="Lee", last_name="Lead",
                  role=Role.TEAM_LEAD, team_id="team-core", department_id="dept-eng"),
    DirectoryUser(id="u-dana", email="dana@example.com", first_name="Dana", last_name="Head",
                  role=Role.MANAGER, department_id="dept-eng"),
    DirectoryUser(id="u-hana", email="hana@example.com", first_name="Hana", last_name="HR",
                  role=Role.HR),
    DirectoryUser(id="u-harry", email="harry@example.com", first_name="Harry", last_name="HR",
                  role=Role.HR),
    DirectoryUser(id="u-ada", email="ada@example.com", first_name="Ada", last_name="Admin",
                  role=Role.ADMIN),
    DirectoryUser(id="u-ivan", email="ivan@example.com", first_name="Ivan", last_name="Inactive",
                  role=Role.HR, status=UserStatus.INACTIVE),
]


def seed_directory() -> None:
    """Insert the fixture organisation into the initialized database."""
    with get_session() as session:
        repo = DirectoryRepository(session)
        for user in USERS:
            repo.add_user(user)
        repo.add_team("team-core", "Core Platform", lead_id="u-lee")
        repo.add_department("dept-eng", "Engineering", head_id="u-dana")
