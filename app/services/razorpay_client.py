from dataclasses import dataclass
import json
import requests

@dataclass
class RazorpayConfig:
    key_id: str             # rzp_test_... / rzp_live_...
    key_secret: str
    host: str = "api.razorpay.com"
    timeout: int = 25

class RazorpayError(RuntimeError):
    def __init__(self, message: str, status_code: int | None = None, payload: dict | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload or {}

def _error_description(data: dict) -> str:
    err = data.get("error") if isinstance(data, dict) else None
    if isinstance(err, dict):
        return err.get("description") or err.get("code") or json.dumps(err)
    return json.dumps(data)

class RazorpayClient:
    def __init__(self, cfg: RazorpayConfig):
        self.cfg = cfg
        self._auth = (cfg.key_id.strip(), cfg.key_secret.strip())

    def request(self, method: str, path: str, payload: dict | None = None) -> dict:
        url = f"https://{self.cfg.host}{path}"
        body = json.dumps(payload or {}, separators=(",", ":"))
        try:
            r = requests.request(
                method=method.upper(),
                url=url,
                data=body,
                auth=self._auth,
                headers={"Content-Type": "application/json", "Accept": "application/json"},
                timeout=self.cfg.timeout,
            )
        except requests.RequestException as e:
            raise RazorpayError(f"Razorpay unreachable: {e}") from e
        try:
            data = r.json() if r.text else {}
        except ValueError:
            data = {"raw": r.text}
        if r.status_code >= 400:
            raise RazorpayError(f"Razorpay {r.status_code}: {_error_description(data)}", r.status_code, data)
        return data

    def refund_payment(self, *, payment_id: str, amount: int, speed: str = "normal", receipt: str = "", notes: dict | None = None) -> dict:
        """Refund ``amount`` (minor units, e.g. paise) against a captured payment."""
        payload = {"amount": int(amount), "speed": speed, "notes": notes or {}}
        if receipt:
            payload["receipt"] = receipt[:40]
        return self.request("POST", f"/v1/payments/{payment_id}/refund", payload)
