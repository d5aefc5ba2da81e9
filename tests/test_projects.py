from __future__ import annotations

from pathlib import Path

from wp_automation.drivers import DatabaseDriverFactory
from wp_automation.models import WpConfigInfo
from wp_automation.projects import connection_from_wp_config, delete_project, inspect_project
from wp_automation.wpconfig import rewrite_settings

from conftest import InMemoryDatabaseServer


def _project(tmp_path: Path, wordpress_template: Path) -> Path:
    project = tmp_path / "sites" / "demo"
    project.parent.mkdir()
    wordpress_template.rename(project)
    rewrite_settings(project / "wp-config.php", db_name="demo_db", db_user="wp", db_password="pw", db_host="localhost:3307")
    return project


def test_inspect_project_reports_database_settings(tmp_path: Path, wordpress_template: Path) -> None:
    project = _project(tmp_path, wordpress_template)

    info = inspect_project(project)

    assert info.is_valid
    assert info.name == "demo"
    assert info.wp_config is not None
    assert info.wp_config.db_name == "demo_db"
    assert info.wp_config.table_prefix == "wp_"


def test_inspect_non_wordpress_directory(tmp_path: Path) -> None:
    info = inspect_project(tmp_path)

    assert not info.is_valid
    assert info.wp_config is None


def test_connection_from_wp_config_splits_port() -> None:
    info = WpConfigInfo(db_name="demo_db", db_user="wp", db_password="pw", db_host="db.local:3307")
    connection = connection_from_wp_config(info)
    assert (connection.host, connection.port, connection.user) == ("db.local", 3307, "wp")

    default = connection_from_wp_config(
        WpConfigInfo(db_name="demo_db", db_user="wp", db_password="", db_host="localhost")
    )
    assert default.port == 3306


def test_delete_project_drops_database_and_files(
    tmp_path: Path, wordpress_template: Path, driver_factory: DatabaseDriverFactory, memory_server: InMemoryDatabaseServer
) -> None:
    project = _project(tmp_path, wordpress_template)
    memory_server.databases.add("demo_db")

    result = delete_project(project, driver_factory, driver_type="memory")

    assert result.success
    assert result.files_deleted and result.database_deleted
    assert not project.exists()
    assert memory_server.events == [("drop", "demo_db", "wp")]


def test_delete_project_missing_database_counts_as_deleted(
    tmp_path: Path, wordpress_template: Path, driver_factory: DatabaseDriverFactory
) -> None:
    project = _project(tmp_path, wordpress_template)

    result = delete_project(project, driver_factory, driver_type="memory")

    assert result.success
    assert result.database_deleted
    assert "already absent" in result.message


def test_delete_project_can_keep_database(
    tmp_path: Path, wordpress_template: Path, driver_factory: DatabaseDriverFactory, memory_server: InMemoryDatabaseServer
) -> None:
    project = _project(tmp_path, wordpress_template)
    memory_server.databases.add("demo_db")

    result = delete_project(project, driver_factory, driver_type="memory", delete_database=False)

    assert result.success
    assert not result.database_deleted
    assert "demo_db" in memory_server.databases


def test_delete_refuses_non_wordpress_directory(tmp_path: Path, driver_factory: DatabaseDriverFactory) -> None:
    folder = tmp_path / "photos"
    folder.mkdir()

    result = delete_project(folder, driver_factory, driver_type="memory")

    assert not result.success
    assert folder.exists()


def test_delete_refuses_system_directory(driver_factory: DatabaseDriverFactory) -> None:
    result = delete_project(Path("/etc"), driver_factory, driver_type="memory")

    assert not result.success
    assert Path("/etc").exists()


def test_delete_missing_project(tmp_path: Path, driver_factory: DatabaseDriverFactory) -> None:
    result = delete_project(tmp_path / "ghost", driver_factory, driver_type="memory")

    assert not result.success
    assert "does not exist" in result.message
