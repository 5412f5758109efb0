import socket

# public DNS resolvers: Cloudflare, Google, OpenDNS, Quad9
DNS_HOSTS = ["1.1.1.1", "8.8.8.8", "208.67.222.222", "9.9.9.9"]
DNS_PORT = 53


def check_internet_connectivity(timeout: float = 2.0) -> bool:
    """
    Check if the system has internet connectivity by attempting to connect
    to a reliable external host.

    Args:
        timeout: Connection timeout in seconds

    Returns:
        True if internet connection detected, False otherwise
    """
    for host in DNS_HOSTS:
        try:
            conn = socket.create_connection((host, DNS_PORT), timeout=timeout)
        except OSError:
            continue
        conn.close()
        return True
    return False
